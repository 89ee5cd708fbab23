"""
Utilities: record and protobuf conversion
"""
