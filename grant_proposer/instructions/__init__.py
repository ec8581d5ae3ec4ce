from grant_proposer.instructions.grant_builder import (
    Grant,
    GrantType,
    GrantInstructionBuilder,
)

__all__ = [
    'Grant',
    'GrantType',
    'GrantInstructionBuilder',
]
