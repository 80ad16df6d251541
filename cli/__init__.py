# HEARTH v1.0
