"""Restaurant labor payroll and compliance engine."""

__version__ = "1.0.0"
