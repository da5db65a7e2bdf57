"""Importer and exporter plugins"""
