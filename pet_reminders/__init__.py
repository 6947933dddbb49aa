"""宠物护理提醒：记录周期性治疗，推算到期日并推送提醒。"""
__version__ = "0.1.0"
