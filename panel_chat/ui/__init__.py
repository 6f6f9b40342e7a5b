"""
User interface module for the panel chat client.
"""
