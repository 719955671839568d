"""Templates domain - Job flow templates, checklists and client/home flow assignment"""
