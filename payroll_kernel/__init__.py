"""
Payroll Kernel

Shared infrastructure for the payroll execution engine:
- SQLAlchemy base classes, money types and engine/session management
- Injectable clock and canonical workflow types
- Hash-chained audit log with monotonic sequencing
- Typed exceptions and structured JSON logging
"""

__version__ = "0.1.0"
