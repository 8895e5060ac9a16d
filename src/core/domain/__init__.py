"""Modelos y entidades del dominio.

Por qué:
- Aquí viven estructuras de datos puras y estrictas (Pydantic v2 y dataclasses).
- El dominio no sabe nada de HTTP, del CLI ni del almacenamiento.
"""
