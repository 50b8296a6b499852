"""
cfsearch: counterfactual explanations for black-box predictive models.
"""

__version__ = "0.1.0"
