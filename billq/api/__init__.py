"""HTTP API for BillQ"""
