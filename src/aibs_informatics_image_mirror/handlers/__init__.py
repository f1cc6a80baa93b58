"""Lambda handler implementations.

Contains the image mirror handler, which copies container images from a
source registry into ECR one repository per (chained) invocation.
"""
