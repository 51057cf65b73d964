from .gate import ApprovalDecision, ApprovalGate, needs_approval  # noqa
from .policy import DEFAULT_POLICY, ApprovalPolicy  # noqa
