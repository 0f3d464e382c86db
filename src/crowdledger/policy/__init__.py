"""Configuration: fund parameters resolved from the config directory."""

from crowdledger.policy.resolver import ParameterResolver

__all__ = ["ParameterResolver"]
