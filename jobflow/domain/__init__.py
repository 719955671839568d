"""Domain services, one package per area (templates, job flows, assignments, ...)"""
