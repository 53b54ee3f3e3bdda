"""Mailbox Tokens Meta information.
   Mailbox Tokens keeps OAuth credentials of connected mailboxes encrypted
   with keys derived from the authenticated session.
"""
__title__ = 'mailbox_tokens'
__description__ = (
   'Session-bound encryption of mailbox OAuth tokens, '
   'with migration from the legacy static-key scheme.'
)
__version__ = '1.0.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
