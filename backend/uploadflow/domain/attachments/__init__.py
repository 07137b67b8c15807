"""Attachments domain module - content-addressed storage port"""
