"""
Moderation package: rules, evaluation, the queue and the actions taken on content.

Public API:
    - RuleStore: validated creation and cached lookup of moderation rules
    - RuleEvaluator: match one content item against a rule set
    - ModerationQueue: priority-ordered queue with compare-and-set disposition
    - ActionExecutor: apply delete/hide/warn/none and audit it
"""
