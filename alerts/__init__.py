"""Alert system module."""
from alerts.engine import AlertEngine, EvaluationResult
from alerts.gate import AntiNoiseGate, GateState, GateDecision
from alerts.rules_manager import RulesManager
from alerts.dispatcher import AlertDispatcher
from alerts.channels import ConsoleChannel, FileChannel
