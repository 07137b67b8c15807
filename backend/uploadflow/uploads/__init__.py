"""Upload lifecycle: service and HTTP API"""
