"""
recordbase services package - schema, instance and query logic.

Core Services:
- schema_service: entities and property definitions, reference cycle checks
- instance_service: validated instance writes and paged listing
- query_service: saved query trees and their execution
- query_evaluator & query_operators: set-based evaluation of rule groups
- value_codec & display_string: typed value storage and human labels
- cycle_detector: acyclicity of the entity reference graph
"""
