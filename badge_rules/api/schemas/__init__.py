"""
Pydantic schemas for API request/response validation.

Wire names are camelCase to match the rule editor; Python attributes stay
snake_case.
"""

# Re-export schemas for convenient imports.
from .canvas import CanvasGraphPayload as CanvasGraphPayload
from .canvas import CanvasToRuleResponse as CanvasToRuleResponse
from .canvas import ConnectionValidateRequest as ConnectionValidateRequest
from .canvas import ConnectionValidateResponse as ConnectionValidateResponse
from .canvas import RuleToCanvasRequest as RuleToCanvasRequest
from .rule import FieldResponse as FieldResponse
from .rule import RuleEnvelope as RuleEnvelope
from .rule import RuleUpdate as RuleUpdate
from .rule import RuleViolation as RuleViolation
from .rule import ValidateRuleRequest as ValidateRuleRequest
from .rule import ValidateRuleResponse as ValidateRuleResponse
