"""Data Abstraction Layer (DAL) for the SOQL agent.

This package holds the concrete collaborators the engine talks to: the
Salesforce query executor, the schema provider and its cache.
"""
