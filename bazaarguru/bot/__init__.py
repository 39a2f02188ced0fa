"""Telegram bot implementation package.

Contains all Telegram bot specific functionality including command and menu
handlers, keyboards, message templates, URL matching and usage analytics
tracking.
"""
