"""
Core logic for the exam platform's storage and access control.

This module is framework-agnostic - it doesn't import FastAPI, boto3,
or Snowflake. The bucket and the audit destinations are reached through
small protocols, so the gate and the store can be tested in isolation.
"""
