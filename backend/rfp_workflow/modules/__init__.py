"""
Modular monolith package.

Bounded-context modules live under `rfp_workflow/modules/*`. Callers use the
application services within modules rather than reaching into repositories
or infrastructure adapters.
"""
