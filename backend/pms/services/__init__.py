# Occupancy lifecycle services
