"""
consentflow package.

Design intent:
- Host the consent contract wizard core (step topology, resume, gates, parties, acts).
- Keep collaborators (draft store, contacts, jurisdictions) behind narrow protocols.
"""
