"""
Utilidades: normalización de campos, fan-out acotado y manejo de errores.
"""
