"""
envlock: encrypted .env sharing between trusted machines.

Every machine holds its own keypair. The project's recipient registry
decides who can decrypt what gets pushed next. New machines join with
a one-time invite token and an operator's approval; no public keys are
ever passed around by hand.
"""

import os

__version__ = "0.1.0"

ENVLOCK_HOME = os.environ.get("ENVLOCK_HOME", "~/.config/envlock")
