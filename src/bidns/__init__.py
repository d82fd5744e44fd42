"""BIDNS package"""
