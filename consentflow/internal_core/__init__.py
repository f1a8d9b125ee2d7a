from .config import WizardConfig, load_config
from .flow_store import InMemoryFlowStore

__all__ = ["WizardConfig", "load_config", "InMemoryFlowStore"]
