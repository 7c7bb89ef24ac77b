"""Turnwatch: player rotation eligibility tracker."""

__version__ = "0.1.0"
