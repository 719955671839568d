"""Assignments domain - Crew assignment, job lifecycle and employee pay"""
