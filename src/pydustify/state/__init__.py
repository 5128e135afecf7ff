"""State/store layer.

Holds every decoded record per entity kind and answers "all records" and
"latest record for a key" queries. Only ingestion channels write to it.
"""
