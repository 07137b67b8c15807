"""Authentication against the external Identity Provider"""
