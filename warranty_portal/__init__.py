"""Warranty Portal - warranty mailer production portal (API + SFTP drop)"""

__version__ = "1.0.0"
