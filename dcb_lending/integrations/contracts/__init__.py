"""
Contracts (data models).

Request/response shapes and flow state shared by the HTTP clients, the
database layer and the flows, so that no flow guesses at ad-hoc dicts.
"""
