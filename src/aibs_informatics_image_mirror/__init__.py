"""AIBS Informatics image mirror.

Incrementally mirrors container images from a source registry into Amazon ECR
from AWS Lambda, chaining invocations to sweep arbitrarily long repository
lists.
"""
