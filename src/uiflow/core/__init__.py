"""uiflow.core

Flow definitions, step models, configuration and the runner.
"""
