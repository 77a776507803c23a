"""
Automation package: operator-defined trigger -> action rules.
"""
