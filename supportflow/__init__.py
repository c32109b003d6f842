"""
SupportFlow AI - customer support ticketing core
"""
__version__ = "1.0.0"
