"""
Static reference tables consumed by the consent wizard.

Design intent:
- Keep encounter types, acts, recording methods and jurisdictions as data.
- Let the flow modules stay pure lookups over these tables.
"""
