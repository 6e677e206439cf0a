"""Setup (provisioning) services.

This package contains the tenant provisioning workers: each one provisions,
polls, seeds or verifies one slice of tenant state and is invoked in order by
the sequencer (see ``controlplane.services.sequencer``).
"""
