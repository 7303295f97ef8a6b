"""Alert decision and escalation engine for vital-sign and fall telemetry.

This package contains the business logic and domain models, isolated from
storage, transport and notification delivery for easy testing and reasoning.
"""
