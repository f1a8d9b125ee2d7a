"""
Consent wizard state machine.

Design intent:
- Topology and resume-step resolution are pure functions of FlowState.
- Party validation and act selection never mutate their inputs.
- WizardController is the single writer to the flow store.
"""
