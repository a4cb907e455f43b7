"""
Payroll Modules.

Orchestration layers over the Payroll Kernel:
- ``sources``: collaborator tables read by the engine (employees, pay
  grades, approved configuration, bonuses, benefits, refunds, penalties,
  leave)
- ``execution``: the payroll run lifecycle, calculation pipeline, anomaly
  overlay, reports and bank transfer export
"""
