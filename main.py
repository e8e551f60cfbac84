#!/usr/bin/env python3
"""
Main entry point for the sleept chat client
"""

from sleept.main import run

if __name__ == "__main__":
    run()
