"""StateBag keys shared between steps.

These names form the contract between steps: each step documents which
of them it reads (preconditions) and which it writes (postconditions).
"""

from __future__ import annotations

# ── Seeded by the caller ────────────────────────────────────────────

TARGET_DESCRIPTOR = 'target.descriptor'
PROVIDER = 'provider'
UI = 'ui'
SSH_PRIVATE_KEY = 'ssh.privateKey'

# ── Written by the runner ───────────────────────────────────────────

CANCELLATION = 'run.cancellation'
RUN_ERROR = 'run.error'

# ── Written by steps ────────────────────────────────────────────────

ALLOCATION_ID = 'resource.allocationId'
BINDING_ID = 'resource.bindingId'
PUBLIC_IP = 'resource.publicIp'
SESSION_HANDLE = 'session.handle'
