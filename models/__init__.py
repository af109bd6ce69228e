"""
Models package for mc-session-bot
"""
