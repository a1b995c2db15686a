"""fleet/ -- Buses: domain model, repository and service.

Layer rule: fleet/ imports from core/ and storage/ only. api/ imports from
fleet/, never the other way around.
"""
