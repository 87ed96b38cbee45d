"""VMSS Blue/Green Rotation.

Zero-downtime capacity rotation for Azure Virtual Machine Scale Sets:
scale out, protect the new instances from scale-in, scale back in so the
provider removes the old instances, then lift the protection again.
"""

__version__ = "0.1.0"
