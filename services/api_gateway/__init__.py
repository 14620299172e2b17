"""
API Gateway

Dynamic reverse proxy whose routes come from the module market.
"""
