"""
API module boundary for the consent wizard service.

Design intent:
- Keep HTTP handlers thin; state transitions belong to consentflow.flow.
- Expose collaborators on app.state so tests can inject fakes.
"""
