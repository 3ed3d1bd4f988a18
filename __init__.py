"""
xls Converter Application

This package provides an API that converts the first sheet of an uploaded
xls/xlsx file into JSON, keeping only the requested columns and rows.

Key modules:
- main.py: FastAPI application with the conversion endpoint
- extraction.py: Range parsing, column/row selection and sheet extraction
- excel_reader.py: Workbook loading and the reader service
- json_writer.py: Output writers
- utils/result.py: Result pattern implementation for error handling
- utils/errors.py: Extraction and writer exceptions
"""
