"""Storage - data retention"""
