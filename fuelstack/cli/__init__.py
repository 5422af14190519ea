"""Command line entry points: fuelstack-keeper and fuelstack-solver."""
