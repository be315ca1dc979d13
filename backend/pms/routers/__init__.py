# API Routers
from pms.routers import checkin, checkout, occupancies, payments

__all__ = ['checkin', 'checkout', 'occupancies', 'payments']
