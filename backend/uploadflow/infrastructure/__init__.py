"""Infrastructure adapters: storage, identity provider, mail ingest"""
