# Ontology Models
from pms.models.ontology import (
    Property, Room, Guest, Occupancy, OccupancyGuest, Payment, Employee
)

__all__ = [
    'Property', 'Room', 'Guest', 'Occupancy', 'OccupancyGuest', 'Payment', 'Employee'
]
