"""Contratos del Core.

Por qué:
- Los servicios (resolver de tenant, mutaciones) dependen de Protocols y no de
  adaptadores concretos; los tests pasan implementaciones en memoria.
"""
