"""
RFP response workflow core.

Stores RFPs with their seven proposal sections and artifact bindings in
DynamoDB, and decides when generated section content has gone stale.
"""
