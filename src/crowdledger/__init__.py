"""crowdledger: cycle-based share accrual and proportional fee distribution."""

__version__ = "0.1.0"
