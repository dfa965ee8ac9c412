from site_dispatch.dispatch.engine import ControlCycle, decide
from site_dispatch.dispatch.load_state import LoadStateStore
from site_dispatch.dispatch.slot import ControlDecision, Slot, TradingSignal

__all__ = ["ControlCycle", "ControlDecision", "LoadStateStore", "Slot", "TradingSignal", "decide"]
