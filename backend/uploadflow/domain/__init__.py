"""Domain layer: upload lifecycle rules and storage ports"""
