"""
Study tracker core: adaptive review scheduling and the lesson store.
"""
