"""
Utilities package for mc-session-bot
"""
