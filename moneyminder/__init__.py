"""
MoneyMinder - Source Package

A personal finance tracker: users register, verify their email, optionally
protect their account with TOTP two-factor authentication, and record
transactions and savings goals against an incrementally maintained summary.

DESIGN PRINCIPLES:
1. Storage is injected, never global
2. Summaries are folded atomically with the writes that change them
3. Every failure has a type and an HTTP status
4. Every significant action is audited
5. External collaborators (email, advice) sit behind interfaces
"""

__version__ = "1.0.0"
__author__ = "MoneyMinder Team"
