"""Multi-currency monthly payroll engine for a multi-tenant HR backend."""

__version__ = "0.1.0"
