"""
RFP module.

An RFP owns seven fixed proposal sections and one bindings record. Section
content is generated elsewhere; this module decides when that content has
gone stale relative to the artifacts and inputs it was generated from.
"""
