"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It puts the project directory on the Python path so that the top-level
modules (main, extraction, excel_reader, json_writer) and the utils package
import the same way during test execution as they do when the app runs.
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))
