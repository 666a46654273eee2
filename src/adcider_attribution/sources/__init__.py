"""
Package: sources
Description: Producers feeding the batching engine.

Attribution tokens and purchase transactions come from platform
services; these adapters fetch or subscribe to them and queue what they
receive.
"""
