"""
All the structures and functions to manipulate the resource bodies and fields.

All the functions are purely data-manipulative and computational.
No external calls or any i/o activities are done here.
"""
